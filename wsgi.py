import os

# Force production env unless the host says otherwise
os.environ.setdefault("APP_ENV", "production")

from writory import create_app  # noqa: E402

app = create_app()
