# Main orchestration logic

# agent.py

import argparse
import time
import schedule # For scheduling periodic runs
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from config_manager import ConfigManager, ConfigurationError
from email_handler import EmailHandler
from incident_pipeline import MissingFieldsPipeline
from models import BusinessUnit, FilterConfig, Platform, RunResult
from platform_clients import client_for
from report_builder import ReportBuilder

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def configure_logging(log_file: str = "missing_fields_agent.log", level: int = logging.INFO):
    """Configures the root logger. All module loggers inherit this."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(name)s - [%(module)s.%(funcName)s:%(lineno)d] - %(message)s',
        handlers=[
            logging.FileHandler(log_file, mode='a'),
            logging.StreamHandler(sys.stdout)
        ]
    )


class MissingFieldsAgent:
    """
    Fetches incidents from incident.io and FireHydrant, finds the ones missing
    required documentation fields, and distributes the results by email and CSV.
    """
    def __init__(self, ini_file_path: str = 'config.ini', env_file_path: Optional[str] = None,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        logger.info("--- Initializing Missing Fields Agent ---")
        self.config = ConfigManager(ini_file_path, env_file_path)
        self.clock = clock
        self.pipeline = MissingFieldsPipeline(self.config.required_fields, self.config.field_aliases)
        self.email_handler = EmailHandler(self.config)
        logger.info(f"Agent Name: {self.config.agent_name}")
        logger.info(f"Daily check at {self.config.daily_run_time}, weekly summary on "
                    f"{self.config.weekly_summary_day} at {self.config.weekly_summary_time}.")

    def fetch_all(self, start_date: datetime) -> Dict[BusinessUnit, List[Dict[str, Any]]]:
        """Fetches every business unit. Credentials are checked for all units before any request."""
        credentials = self.config.require_platform_credentials()
        return {
            unit: client_for(unit, unit_credentials).fetch_incidents(start_date)
            for unit, unit_credentials in credentials.items()
        }

    def run_missing_fields_check(self, filter_config: Optional[FilterConfig] = None) -> RunResult:
        """
        One full check: fetch, run the pipeline, write the CSV report and email it.
        Any failure before the report is built propagates, so no partial report is sent.
        """
        filter_config = filter_config or self.config.filter_config
        now = self.clock()
        start_date, _ = filter_config.resolve_date_range(now)
        logger.info(f"[{self.config.agent_name}] === Starting missing fields check ===")

        raw_batches = self.fetch_all(start_date)
        result = self.pipeline.run(raw_batches, filter_config, now)

        builder = ReportBuilder(filter_config, self.config.agent_name)
        report_path = builder.write_csv(result, self.config.report_directory)
        subject, body = builder.build_daily_email(result)
        self.email_handler.send_report(subject, body, attachment_path=report_path)

        logger.info(f"[{self.config.agent_name}] === Finished missing fields check: "
                    f"{result.aggregation.grand_total} incident(s) flagged, {result.dropped_count} dropped ===")
        return result

    def run_weekly_summary(self) -> RunResult:
        """Completion summary over the 7 days ending now, regardless of the configured window."""
        filter_config = self.config.build_filter_config(
            lookbackDays=7, customStartDate=None, customEndDate=None, dateRangePreset=None,
        )
        now = self.clock()
        start_date, _ = filter_config.resolve_date_range(now)
        logger.info(f"[{self.config.agent_name}] === Starting weekly summary ===")

        result = self.pipeline.run(self.fetch_all(start_date), filter_config, now)
        monitored = [name for platform in Platform for name in self.config.required_fields.get(platform, [])]
        subject, body = ReportBuilder(filter_config, self.config.agent_name).build_weekly_email(
            result.summary, list(dict.fromkeys(monitored))
        )
        self.email_handler.send_report(subject, body)
        logger.info(f"[{self.config.agent_name}] === Finished weekly summary ===")
        return result

    def test_connections(self) -> List[Tuple[bool, str]]:
        return [
            client_for(unit, credentials).test_connection()
            for unit, credentials in self.config.require_platform_credentials().items()
        ]

    def _run_job(self, job: Callable[[], Any]):
        """Scheduled jobs log failures instead of stopping the scheduler."""
        try:
            job()
        except ConfigurationError as e:
            logger.critical(f"[{self.config.agent_name}] Configuration error, run aborted: {e}")
        except Exception as e:
            logger.error(f"[{self.config.agent_name}] Run failed, no report sent: {e}", exc_info=True)

    def start_agent(self):
        """Schedules the daily check and weekly summary, then runs until interrupted."""
        logger.info(f"--- Missing Fields Agent '{self.config.agent_name}' is starting up... ---")
        if self.config.weekly_summary_day not in WEEKDAYS:
            raise ConfigurationError(f"WeeklySummaryDay must be a weekday name, got '{self.config.weekly_summary_day}'")

        schedule.every().day.at(self.config.daily_run_time).do(self._run_job, self.run_missing_fields_check)
        getattr(schedule.every(), self.config.weekly_summary_day).at(self.config.weekly_summary_time).do(
            self._run_job, self.run_weekly_summary
        )

        logger.info(f"[{self.config.agent_name}] Scheduler started. Press Ctrl+C to stop.")
        try:
            while True:
                schedule.run_pending()
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info(f"[{self.config.agent_name}] Shutdown signal (KeyboardInterrupt) received. Stopping agent...")
        finally:
            logger.info(f"--- {self.config.agent_name} is shutting down. ---")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Report incidents missing required documentation fields.")
    parser.add_argument("--config", default="config.ini", help="Path to config.ini")
    parser.add_argument("--env-file", default=None, help="Path to .env with API keys and SMTP credentials")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Run one missing fields check and exit")
    mode.add_argument("--weekly", action="store_true", help="Send the weekly summary now and exit")
    mode.add_argument("--test-connections", action="store_true", help="Check every platform's credentials and exit")
    parser.add_argument("--start-date", help="Custom range start (YYYY-MM-DD), used with --once")
    parser.add_argument("--end-date", help="Custom range end (YYYY-MM-DD), used with --once")
    args = parser.parse_args(argv)
    if bool(args.start_date) != bool(args.end_date):
        parser.error("--start-date and --end-date must be given together")
    return args


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging()
    try:
        agent = MissingFieldsAgent(args.config, args.env_file)
        if args.test_connections:
            results = agent.test_connections()
            for _, message in results:
                print(message)
            return 0 if all(ok for ok, _ in results) else 1
        if args.weekly:
            agent.run_weekly_summary()
            return 0
        if args.once or args.start_date:
            filter_config = None
            if args.start_date:
                filter_config = agent.config.build_filter_config(
                    customStartDate=args.start_date, customEndDate=args.end_date
                )
            agent.run_missing_fields_check(filter_config)
            return 0
        agent.start_agent()
        return 0
    except FileNotFoundError as e:
        logger.critical(f"Agent cannot start: {e}")
        return 2
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
