"""Local development entry point.

Usage:
    python run.py

Loads .env first so STRIPE_* keys and DATABASE_URL are picked up.
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from membership_gateway import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5001)
