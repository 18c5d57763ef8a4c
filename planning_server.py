#!/usr/bin/env python3

from flask import Flask, jsonify, request, send_file
from flask_cors import CORS
import argparse
import logging
import os
import traceback
from datetime import date, datetime
from dotenv import load_dotenv

from planning.calendar import WorkCalendar
from planning.engine import calculate_plan
from planning.errors import SnapshotError, TeamNotFoundError
from planning.export import export_plan_workbook
from planning.holidays import DEFAULT_API_URL, HolidayClient
from planning.snapshot import load_snapshot
from planning.wip import DEFAULT_PERIOD_DAYS, role_load

# Load environment variables from .env file
load_dotenv()

app = Flask(__name__)
CORS(app)  # Enable CORS for all routes

# CONFIGURATION - Load from environment variables
SNAPSHOT_FILE = os.getenv('SNAPSHOT_FILE', 'snapshot.json')
SERVER_PORT = int(os.getenv('SERVER_PORT', '5050'))
CALENDAR_SOURCE = os.getenv('CALENDAR_SOURCE', 'snapshot')  # "snapshot" or "api"
HOLIDAY_API_URL = os.getenv('HOLIDAY_API_URL', DEFAULT_API_URL)
HOLIDAYS_CACHE_FILE = os.getenv('HOLIDAYS_CACHE_FILE', 'holidays_cache.json')
CACHE_EXPIRY_HOURS = int(os.getenv('CACHE_EXPIRY_HOURS', '24'))
ROLE_LOAD_PERIOD_DAYS = int(os.getenv('ROLE_LOAD_PERIOD_DAYS', str(DEFAULT_PERIOD_DAYS)))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
CALENDAR_YEARS_AHEAD = 3

HOLIDAY_CLIENT = None


def parse_args():
    """Parse CLI arguments to optionally override environment variables."""
    parser = argparse.ArgumentParser(description='Team delivery planning server')
    parser.add_argument('--server_port', type=int, help='Port to run the server on (defaults to 5050 or SERVER_PORT env)')
    parser.add_argument('--snapshot_file', help='Path to the tracker snapshot JSON (overrides SNAPSHOT_FILE env)')
    parser.add_argument('--calendar_source', choices=['snapshot', 'api'], help='Where non-working days come from (overrides CALENDAR_SOURCE env)')
    return parser.parse_args()


def get_holiday_client():
    global HOLIDAY_CLIENT
    if HOLIDAY_CLIENT is None:
        HOLIDAY_CLIENT = HolidayClient(
            api_url=HOLIDAY_API_URL,
            cache_file=HOLIDAYS_CACHE_FILE,
            cache_expiry_hours=CACHE_EXPIRY_HOURS,
        )
    return HOLIDAY_CLIENT


def build_calendar(snapshot, team_id, planning_date):
    """Work calendar for the team: snapshot holidays, plus the API calendar when enabled."""
    team = snapshot.teams.get(team_id)
    country = team.config.country_code if team else 'RU'
    holidays = set(snapshot.holidays)
    listed_years = ()
    if CALENDAR_SOURCE == 'api':
        years = range(planning_date.year, planning_date.year + CALENDAR_YEARS_AHEAD)
        production = get_holiday_client().calendar_for(years, country)
        holidays |= production.holidays
        listed_years = production.listed_years
    return WorkCalendar(holidays, country_code=country, listed_years=listed_years)


class InvalidDateError(ValueError):
    pass


def parse_planning_date():
    raw = request.args.get('date')
    if not raw:
        return date.today()
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise InvalidDateError(f'Invalid date: {raw}')


def no_cache(response):
    response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
    response.headers['Pragma'] = 'no-cache'
    response.headers['Expires'] = '0'
    return response


def error_response(error, message, status):
    return no_cache(jsonify({'error': error, 'message': message})), status


def run_plan(team_id):
    planning_date = parse_planning_date()
    snapshot = load_snapshot(SNAPSHOT_FILE)
    calendar = build_calendar(snapshot, team_id, planning_date)
    result = calculate_plan(team_id, snapshot, planning_date, calendar=calendar)
    return result, snapshot, calendar


def handle_planning_errors(action, func):
    try:
        return func()
    except InvalidDateError as e:
        return error_response('Invalid request', str(e), 400)
    except TeamNotFoundError as e:
        print(f'❌ {e}')
        return error_response('Team not found', str(e), 404)
    except SnapshotError as e:
        print(f'❌ Snapshot error: {e}')
        return error_response('Invalid tracker snapshot', str(e), 500)
    except Exception as e:
        print(f'❌ Exception: {str(e)}')
        traceback.print_exc()
        return error_response(f'Failed to {action}', str(e), 500)


@app.route('/api/planning/<team_id>', methods=['GET'])
def get_plan(team_id):
    """Unified plan for a team"""
    def build():
        print(f'\n🗓️ Planning team {team_id}...')
        result, _, _ = run_plan(team_id)
        print(f'✅ Planned {len(result.epics)} epics with {len(result.warnings)} warnings')
        return no_cache(jsonify(result.to_dict()))

    return handle_planning_errors('calculate plan', build)


@app.route('/api/planning/<team_id>/role-load', methods=['GET'])
def get_role_load(team_id):
    """Role utilization and WIP telemetry for a team"""
    def build():
        result, snapshot, calendar = run_plan(team_id)
        report = role_load(result, snapshot.teams[team_id], calendar, ROLE_LOAD_PERIOD_DAYS)
        for alert in report.alerts:
            print(f'⚠️ {alert.type}: {alert.message}')
        return no_cache(jsonify(report.to_dict()))

    return handle_planning_errors('calculate role load', build)


@app.route('/api/planning/<team_id>/export-excel', methods=['GET'])
def export_excel(team_id):
    """Export the team plan to an Excel file"""
    def build():
        result, _, _ = run_plan(team_id)
        print(f'\n📊 Exporting plan for team {team_id} to Excel...')
        output = export_plan_workbook(result)
        print('✅ Excel file generated successfully')
        return send_file(
            output,
            mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
            as_attachment=True,
            download_name=f'plan_{team_id}_{datetime.now().strftime("%Y-%m-%d")}.xlsx'
        )

    return handle_planning_errors('export plan', build)


@app.route('/api/config', methods=['GET'])
def get_config():
    """Get public configuration"""
    return jsonify({
        'calendarSource': CALENDAR_SOURCE,
        'roleLoadPeriodDays': ROLE_LOAD_PERIOD_DAYS,
    })


@app.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint"""
    return jsonify({
        'status': 'OK',
        'message': 'Planning server is running'
    })


if __name__ == '__main__':
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    # Apply CLI overrides while keeping env defaults as fallbacks
    if args.server_port:
        SERVER_PORT = args.server_port
    if args.snapshot_file:
        SNAPSHOT_FILE = args.snapshot_file
    if args.calendar_source:
        CALENDAR_SOURCE = args.calendar_source

    if not os.path.exists(SNAPSHOT_FILE):
        print(f'\n❌ ERROR: snapshot file {SNAPSHOT_FILE} not found!')
        print('📝 Set SNAPSHOT_FILE in .env (see .env.example) or pass --snapshot_file.\n')
        exit(1)

    print('\n🚀 Planning Server starting...')
    print(f'📦 Snapshot: {SNAPSHOT_FILE}')
    print(f'📅 Calendar source: {CALENDAR_SOURCE}')
    print(f'💾 Holiday cache expires after: {CACHE_EXPIRY_HOURS} hours')
    print('\n📋 Endpoints:')
    print(f'   • http://localhost:{SERVER_PORT}/api/planning/<team_id> - Unified plan')
    print(f'   • http://localhost:{SERVER_PORT}/api/planning/<team_id>?date=YYYY-MM-DD - Plan as of a date')
    print(f'   • http://localhost:{SERVER_PORT}/api/planning/<team_id>/role-load - Role load and WIP')
    print(f'   • http://localhost:{SERVER_PORT}/api/planning/<team_id>/export-excel - Excel export')
    print(f'   • http://localhost:{SERVER_PORT}/health - Health check')
    print('\n✅ Server ready!\n')

    app.run(host='0.0.0.0', port=SERVER_PORT, debug=True)
