"""
ASGI entry point for the relay.

    uvicorn server.asgi:app --host 127.0.0.1 --port 8765

Prefer server/main.py, which applies RELAY_HOST / RELAY_PORT from the
environment.
"""

from dotenv import load_dotenv

load_dotenv()

from server.app import create_app  # pylint: disable=wrong-import-position

app = create_app()
