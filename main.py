#!/usr/bin/env python3
"""
Incident Batch Automation - command line entry point
Description:
Loads a workbook of incident records and creates one incident event per
record on the portal, logging in once with credentials from the environment
(.env supported). Progress is printed from the same status snapshot the
polling client sees.

Usage:
    python main.py parse incidents.xlsx
    python main.py run incidents.xlsx --delay-ms 2000
"""

import argparse
import asyncio
import json
import logging
import sys

from base_exceptions import IntakeError
from config_manager import ConfigurationManager
from controller import AutomationController
from intake import parse_workbook
from session_state import BatchPhase

logger = logging.getLogger(__name__)

STATUS_POLL_SECONDS = 2.0


def configure_logging(level_name: str):
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler('incident_automation.log'),
            logging.StreamHandler()
        ]
    )


async def run_batch(controller: AutomationController, workbook: str, credentials: dict, delay_ms=None) -> int:
    upload = controller.upload_batch(workbook)
    print(f"📂 {upload['count']} records loaded from {workbook}")

    config = {} if delay_ms is None else {'interRecordDelayMs': delay_ms}
    controller.start_processing(credentials, config)

    last_processed = -1
    while controller.get_status()['isProcessing']:
        status = controller.get_status()
        if status['processedCount'] != last_processed:
            last_processed = status['processedCount']
            print(f"Progress: {status['progressPercent']}% "
                  f"({status['processedCount']}/{status['totalCount']})")
        await asyncio.sleep(STATUS_POLL_SECONDS)

    outcome = await controller.wait_until_idle()
    print(f"\n📊 Result: {outcome.phase.value} - {outcome.completed} completed, "
          f"{outcome.failed} failed, {outcome.pending} pending")
    for record in controller.get_status()['records']:
        if record['status'] == 'failed':
            print(f"  ❌ {record['externalId']}: {record['errorDetail']}")
    return 1 if outcome.phase == BatchPhase.ABORTED else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create portal incident events from a workbook")
    parser.add_argument("--config", help="JSON configuration file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_cmd = subparsers.add_parser("parse", help="Print the records parsed from a workbook")
    parse_cmd.add_argument("workbook")

    run_cmd = subparsers.add_parser("run", help="Process every record of a workbook")
    run_cmd.add_argument("workbook")
    run_cmd.add_argument("--delay-ms", type=int, default=None, help="Delay between records")
    run_cmd.add_argument("--headed", action="store_true", help="Show the browser window")

    args = parser.parse_args(argv)

    config_manager = ConfigurationManager()
    try:
        config = config_manager.load_configuration(args.config)
    except ValueError as config_error:
        print(f"❌ Configuration error: {config_error}")
        print("💡 Please check your .env file and configuration JSON")
        return 2
    configure_logging(config.processing.log_level)

    try:
        if args.command == "parse":
            records = parse_workbook(args.workbook, config.default_action_type)
            print(json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False))
            return 0

        if args.headed:
            config.driver.headless = False
        if not config.driver.portal_url:
            print("❌ PORTAL_URL is required to run a batch")
            return 2
        controller = AutomationController(config)
        return asyncio.run(run_batch(controller, args.workbook,
                                     config_manager.get_env_credentials(), args.delay_ms))
    except IntakeError as e:
        print(f"❌ {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
