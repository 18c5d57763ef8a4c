import io

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill

from .models import PIPELINE_ROLES, PlanningResult, iso


HEADERS = ['Epic', 'Story', 'Summary', 'Start', 'End', 'Progress %', 'Warnings'] + [
    f'{role} {column}'
    for role in PIPELINE_ROLES
    for column in ('Assignee', 'Start', 'End', 'Hours')
]

COLUMN_WIDTHS = {'A': 15, 'B': 15, 'C': 50, 'D': 12, 'E': 12, 'F': 12, 'G': 30}


def _style_header(ws, headers):
    header_fill = PatternFill(start_color='107C41', end_color='107C41', fill_type='solid')
    header_font = Font(bold=True, color='FFFFFF', size=12)
    header_alignment = Alignment(horizontal='center', vertical='center')
    for col_num, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col_num)
        cell.value = header
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = header_alignment


def plan_rows(result: PlanningResult):
    for epic in result.epics:
        for story in epic.stories:
            row = [
                epic.epic_key,
                story.story_key,
                story.summary,
                iso(story.start_date),
                iso(story.end_date),
                story.progress_percent,
                ', '.join(sorted({warning.kind.value for warning in story.warnings})),
            ]
            for role in PIPELINE_ROLES:
                phase = story.phases.get(role)
                if phase is None:
                    row += [None, None, None, None]
                    continue
                assignee = 'NO CAPACITY' if phase.no_capacity else phase.assignee_name
                row += [assignee, iso(phase.start_date), iso(phase.end_date), phase.hours]
            yield row


def export_plan_workbook(result: PlanningResult) -> io.BytesIO:
    """Render the plan as an xlsx file: one sheet of stories, one of epics."""
    wb = Workbook()
    ws = wb.active
    ws.title = 'Plan'
    _style_header(ws, HEADERS)
    for row_num, row in enumerate(plan_rows(result), 2):
        for col_num, value in enumerate(row, 1):
            ws.cell(row=row_num, column=col_num, value=value)
    for column, width in COLUMN_WIDTHS.items():
        ws.column_dimensions[column].width = width

    epics_ws = wb.create_sheet('Epics')
    epic_headers = ['Epic', 'Summary', 'Start', 'End', 'Due', 'Delta Days', 'Confidence', 'Queue Position']
    _style_header(epics_ws, epic_headers)
    for row_num, epic in enumerate(result.epics, 2):
        values = [
            epic.epic_key,
            epic.summary,
            iso(epic.start_date),
            iso(epic.end_date),
            iso(epic.due_date),
            epic.due_date_delta_days,
            epic.confidence.value,
            epic.queue_position,
        ]
        for col_num, value in enumerate(values, 1):
            epics_ws.cell(row=row_num, column=col_num, value=value)
    epics_ws.column_dimensions['B'].width = 50

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output
