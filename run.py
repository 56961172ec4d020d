from dotenv import load_dotenv
import os

# Load environment variables from .env file
load_dotenv()

from boardinghouse import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    if app.config.get("SCHEDULER_ENABLED"):
        app.extensions["billing_scheduler"].start()
    port = int(os.getenv("PORT", 8000))  # Default to 8000 if not in .env
    app.run(host="0.0.0.0", port=port, use_reloader=False)
