"""Local development entry point.

Usage:
    python run.py

Reads .env first so create_app() sees STRIPE_* / DATABASE_URL.
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from benchlot import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5001)
