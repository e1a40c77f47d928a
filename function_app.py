import azure.functions as func
from internjobs_ingest import cleanup_main, main as internjobs_ingest_main

app = func.FunctionApp()

@app.function_name(name="internjobs_ingest")
@app.timer_trigger(schedule="0 0 6 * * *", arg_name="mytimer",
                   run_on_startup=False, use_monitor=False)
def internjobs_ingest(mytimer: func.TimerRequest):
    """Daily ingestion run at 06:00 UTC."""
    internjobs_ingest_main(mytimer)


@app.function_name(name="cleanup_jobs")
@app.timer_trigger(schedule="0 0 0 * * *", arg_name="mytimer",
                   run_on_startup=False, use_monitor=False)
def cleanup_jobs(mytimer: func.TimerRequest):
    """Daily retention sweep at midnight UTC: removes every job older than RETENTION_DAYS."""
    cleanup_main(mytimer)
