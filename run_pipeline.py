#!/usr/bin/env python3
"""
Local runner for the InternJobs.ai ingestion pipeline.

This script loads configuration from local.settings.json and runs the
complete pipeline (fetch, classify, upsert, sweep) without deploying to Azure.

Usage:
    python run_pipeline.py                   # incremental (last INCREMENTAL_DAYS days)
    python run_pipeline.py --mode backfill   # everything the source currently lists
    python run_pipeline.py --cleanup         # global retention sweep only
    python run_pipeline.py --reclassify      # retry classification for stored rows with null fields

Configuration:
    - All settings from local.settings.json (environment variables)
    - --mode overrides FETCH_MODE from the settings file
"""

import argparse
import json
import os
import sys
from datetime import datetime
from unittest.mock import Mock
from pathlib import Path


parser = argparse.ArgumentParser(description="Run the InternJobs.ai ingestion pipeline locally")
parser.add_argument("--mode", choices=["incremental", "backfill"], help="Fetch mode (default: FETCH_MODE setting)")
parser.add_argument("--cleanup", action="store_true", help="Run the global retention sweep instead of ingestion")
parser.add_argument("--reclassify", action="store_true", help="Re-classify stored jobs whose education_level or time_commitment is null")
parser.add_argument("--settings", default="local.settings.json", help="Path to the settings file")
args = parser.parse_args()

# Load environment from local.settings.json
settings_path = Path(args.settings)
if not settings_path.exists():
    print(f"❌ Error: {settings_path} not found. Create it with a \"Values\" object holding the app settings.")
    sys.exit(1)

with settings_path.open() as f:
    settings = json.load(f)['Values']
    for key, value in settings.items():
        os.environ[key] = str(value)

if args.mode:
    os.environ['FETCH_MODE'] = args.mode

# Print config summary
print("=" * 80)
print("INTERNJOBS.AI INGESTION - LOCAL RUN")
print("=" * 80)
print(f"Started: {datetime.now().isoformat()}\n")
print(f"Config: {settings_path.resolve()}")
print(f"Database: {os.environ.get('PGHOST') or 'SUPABASE_DB_URL'}")
run_kind = 'cleanup' if args.cleanup else 'reclassify' if args.reclassify else os.environ.get('FETCH_MODE', 'incremental')
print(f"Mode: {run_kind}")
print(f"Location filter: {os.environ.get('LOCATION_FILTER', 'Texas')}")
print(f"Model: {os.environ.get('LLM_MODEL', 'gpt-4o-mini')}")
print()

try:
    from internjobs_ingest import cleanup_main, main, reclassify_main
    import azure.functions as func

    # Mock Azure Timer context for local execution
    timer = Mock(spec=func.TimerRequest)
    timer.past_due = False

    print("🚀 Pipeline starting...\n")
    print("-" * 80 + "\n")

    if args.cleanup:
        cleanup_main(timer)
    elif args.reclassify:
        reclassify_main(timer)
    else:
        main(timer)

    print("\n" + "-" * 80)
    print(f"✅ Pipeline completed at {datetime.now().isoformat()}")
    print("=" * 80)

except Exception as e:
    print("\n" + "-" * 80)
    print(f"❌ Pipeline failed: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
