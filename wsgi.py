import os

from dotenv import load_dotenv

load_dotenv()

from billflow import create_app  # noqa: E402

config = os.getenv("APP_ENV", "production")

app = create_app(config)
