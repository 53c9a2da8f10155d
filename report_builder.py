# report_builder.py

import csv
import html
import os
from typing import List, Sequence, Tuple
import logging

from aggregation import age_bucket, age_in_days
from models import Aggregation, CompletionSummary, CrossTab, FilterConfig, RunResult

logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    "Reference", "Business Unit", "Platform", "Status", "Severity",
    "Created At", "Age (days)", "Age Bucket", "Missing Fields",
]

CELL = 'style="padding: 6px; border: 1px solid #ddd;"'
NUMBER_CELL = 'style="padding: 6px; border: 1px solid #ddd; text-align: center;"'


class ReportBuilder:
    """Turns a RunResult into email content and report rows. No I/O besides write_csv."""

    def __init__(self, config: FilterConfig, agent_name: str = "MissingFieldsReporter"):
        self.config = config
        self.agent_name = agent_name

    # --- Tabular report ---

    def report_rows(self, result: RunResult) -> List[List[str]]:
        boundaries = self.config.bucket_boundaries
        rows = []
        for item in result.classified_incidents:
            incident = item.incident
            rows.append([
                incident.reference,
                incident.business_unit.value,
                incident.platform.value,
                incident.status,
                incident.severity or "",
                incident.created_at.strftime("%Y-%m-%d %H:%M"),
                str(age_in_days(incident.created_at, result.now)),
                age_bucket(incident.created_at, result.now, boundaries),
                ", ".join(item.missing_fields),
            ])
        return rows

    def write_csv(self, result: RunResult, directory: str) -> str:
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, f"missing_fields_{result.now:%Y%m%d_%H%M%S}.csv")
        with open(path, "w", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle)
            writer.writerow(REPORT_COLUMNS)
            writer.writerows(self.report_rows(result))
        logger.info(f"Wrote {len(result.classified_incidents)} row(s) to {path}")
        return path

    # --- Daily email ---

    def _shows_count(self, aggregation: Aggregation, label: str, count: int) -> bool:
        # The mask follows lookbackDays only; a custom range or preset can reach any bucket.
        if count or self.config.is_custom_range:
            return True
        return aggregation.available_buckets.get(label, True)

    def _cross_tab_table(self, title: str, cross_tab: CrossTab, result: RunResult) -> str:
        aggregation = result.aggregation
        header = "".join(f"<th {CELL}>{html.escape(label)}</th>" for label in aggregation.bucket_labels)
        body = ""
        for row, counts in cross_tab.counts.items():
            cells = ""
            for label in aggregation.bucket_labels:
                value = str(counts[label]) if self._shows_count(aggregation, label, counts[label]) else "n/a"
                cells += f"<td {NUMBER_CELL}>{value}</td>"
            body += (
                f"<tr><td {CELL}><strong>{html.escape(row)}</strong></td>{cells}"
                f"<td {NUMBER_CELL}>{cross_tab.row_totals[row]}</td>"
                f"<td {NUMBER_CELL}>{cross_tab.percentages[row]}%</td></tr>"
            )
        return (
            f"<h2>{html.escape(title)}</h2>"
            f"<table style=\"border-collapse: collapse;\"><thead><tr><th {CELL}></th>{header}"
            f"<th {CELL}>Total</th><th {CELL}>%</th></tr></thead><tbody>{body}</tbody></table>"
        )

    def focus_incidents(self, result: RunResult):
        """Classified incidents young enough to be listed individually in the email."""
        return [
            item for item in result.classified_incidents
            if age_in_days(item.incident.created_at, result.now) <= self.config.email_focus_days
        ]

    def build_daily_email(self, result: RunResult) -> Tuple[str, str]:
        aggregation = result.aggregation
        focus = self.focus_incidents(result)
        subject = (f"Missing Fields Report - {aggregation.grand_total} incident(s) need attention "
                   f"({result.date_range_description})")

        focus_rows = ""
        for item in focus:
            incident = item.incident
            focus_rows += (
                f"<tr><td {CELL}>{html.escape(incident.reference)}</td>"
                f"<td {CELL}>{html.escape(incident.business_unit.value)}</td>"
                f"<td {CELL}>{html.escape(incident.status)}</td>"
                f"<td {CELL}>{incident.created_at:%Y-%m-%d}</td>"
                f"<td {CELL}>{html.escape(', '.join(item.missing_fields))}</td></tr>"
            )
        older = len(result.classified_incidents) - len(focus)

        body = (
            "<html><body style=\"font-family: Arial, sans-serif; color: #333;\">"
            f"<h1>Missing Fields Report</h1>"
            f"<p><strong>Period:</strong> {html.escape(result.date_range_description)} "
            f"({result.start_date:%Y-%m-%d} to {result.end_date:%Y-%m-%d})<br>"
            f"<strong>Generated:</strong> {result.now:%Y-%m-%d %H:%M} UTC</p>"
            f"<p><strong>{aggregation.grand_total}</strong> of {len(result.filtered_incidents)} incident(s) "
            f"in scope are missing required fields.</p>"
        )
        if result.dropped_count:
            body += (f"<p style=\"color: #dc3545;\">{result.dropped_count} fetched incident(s) could not be "
                     f"read and are not included.</p>")
        body += self._cross_tab_table("By Business Unit", aggregation.by_business_unit, result)
        body += self._cross_tab_table("By Missing Field", aggregation.by_missing_field, result)
        body += self._cross_tab_table("By Platform", aggregation.by_platform, result)

        body += f"<h2>Incidents from the last {self.config.email_focus_days} days</h2>"
        if focus_rows:
            body += (
                f"<table style=\"border-collapse: collapse;\"><thead><tr>"
                f"<th {CELL}>Reference</th><th {CELL}>Business Unit</th><th {CELL}>Status</th>"
                f"<th {CELL}>Created</th><th {CELL}>Missing Fields</th></tr></thead>"
                f"<tbody>{focus_rows}</tbody></table>"
            )
        else:
            body += "<p>No recent incidents are missing fields.</p>"
        if older:
            body += f"<p>{older} older incident(s) are listed in the attached report.</p>"
        body += f"<p style=\"font-size: 12px; color: #666;\">Sent by {html.escape(self.agent_name)}.</p></body></html>"
        return subject, body

    # --- Weekly summary email ---

    def build_weekly_email(self, summary: CompletionSummary, monitored_fields: Sequence[str]) -> Tuple[str, str]:
        subject = (f"Weekly Incident Summary - {summary.start_date:%Y-%m-%d} to {summary.end_date:%Y-%m-%d}")

        unit_rows = ""
        for unit, data in summary.business_units.items():
            unit_rows += (
                f"<tr><td {CELL}><strong>{html.escape(unit)}</strong></td>"
                f"<td {NUMBER_CELL}>{data.total}</td><td {NUMBER_CELL}>{data.complete}</td>"
                f"<td {NUMBER_CELL}>{data.incomplete}</td><td {NUMBER_CELL}>{data.completion_percentage}%</td></tr>"
            )

        if summary.top_missing_fields:
            field_rows = "".join(
                f"<tr><td {CELL}>{html.escape(field)}</td><td {NUMBER_CELL}>{count}</td></tr>"
                for field, count in summary.top_missing_fields
            )
        else:
            field_rows = f"<tr><td colspan=\"2\" {NUMBER_CELL}>All incidents have complete fields!</td></tr>"

        monitored = "".join(f"<li>{html.escape(name)}</li>" for name in monitored_fields)
        body = (
            "<html><body style=\"font-family: Arial, sans-serif; color: #333;\">"
            f"<h1>Weekly Incident Summary Report</h1>"
            f"<p><strong>Period:</strong> {summary.start_date:%Y-%m-%d} to {summary.end_date:%Y-%m-%d}</p>"
            f"<p><strong>{summary.total_incidents}</strong> incident(s) opened, "
            f"<strong>{summary.complete_incidents}</strong> complete ({summary.completion_percentage}%), "
            f"<strong>{summary.incomplete_incidents}</strong> missing fields ({summary.incompletion_percentage}%).</p>"
            f"<h2>Business Unit Breakdown</h2>"
            f"<table style=\"border-collapse: collapse;\"><thead><tr><th {CELL}>Business Unit</th>"
            f"<th {CELL}>Total</th><th {CELL}>Complete</th><th {CELL}>Missing Fields</th>"
            f"<th {CELL}>Completion Rate</th></tr></thead><tbody>{unit_rows}</tbody></table>"
            f"<h2>Top Missing Fields</h2>"
            f"<table style=\"border-collapse: collapse;\"><thead><tr><th {CELL}>Field</th>"
            f"<th {CELL}>Missing Count</th></tr></thead><tbody>{field_rows}</tbody></table>"
            f"<h2>Required Fields Monitored</h2><ul>{monitored}</ul>"
            f"<p style=\"font-size: 12px; color: #666;\">Please update incidents with missing fields in "
            f"incident.io or FireHydrant. Sent by {html.escape(self.agent_name)}.</p></body></html>"
        )
        return subject, body
