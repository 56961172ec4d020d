#!/usr/bin/env python3
from dotenv import load_dotenv

load_dotenv()

from boardinghouse import create_app  # noqa: E402

app = create_app()

# Under gunicorn run a single worker when the scheduler is on; jobs are not
# coordinated across processes.
if app.config.get("SCHEDULER_ENABLED"):
    app.extensions["billing_scheduler"].start()
