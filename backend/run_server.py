#!/usr/bin/env python3
"""
Start the API server: apply migrations, then run uvicorn.
"""
import os
import sys
import traceback
from pathlib import Path

backend_dir = Path(__file__).parent
os.chdir(backend_dir)


def run_migrations():
    try:
        from scripts.init_db import init_db
        init_db()
    except Exception as e:
        print(f"ERROR: Migrations failed: {e}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    import uvicorn
    from yogabook.core.config import settings

    # Run migrations before starting server (so FastAPI startup doesn't run them)
    run_migrations()

    try:
        print("Starting uvicorn server...")
        uvicorn.run(
            "yogabook.main:app",
            host=settings.HOST,
            port=settings.PORT,
            log_level="info",
            access_log=True,
            reload=False,
        )
    except OSError as e:
        print(f"ERROR: OS error starting server: {e}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nServer stopped by user")
        sys.exit(0)
