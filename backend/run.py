"""
Launcher for the interview recorder backend.
Checks dependencies and storage configuration, then starts uvicorn.
"""

import argparse
import os
import signal
import sys
from pathlib import Path

# import name -> distribution name
REQUIRED_PACKAGES = {
    "fastapi": "fastapi",
    "uvicorn": "uvicorn[standard]",
    "pydantic_settings": "pydantic-settings",
    "multipart": "python-multipart",
    "tenacity": "tenacity",
    "prometheus_client": "prometheus-client",
    "langchain_core": "langchain-core",
    "langchain_google_genai": "langchain-google-genai",
}

BANNER_WIDTH = 60


def banner(*lines: str):
    print("=" * BANNER_WIDTH)
    for line in lines:
        print(f"  {line}")
    print("=" * BANNER_WIDTH)


def signal_handler(signum, frame):
    """Exit cleanly on SIGINT/SIGTERM."""
    print()
    banner(f"Received {signal.Signals(signum).name}, stopping server...")
    sys.exit(0)


def check_dependencies() -> bool:
    missing = []
    for module, distribution in REQUIRED_PACKAGES.items():
        try:
            __import__(module)
        except ImportError:
            missing.append(distribution)

    if missing:
        print(f"ERROR: Missing packages: {', '.join(missing)}")
        print("  pip install -e .")
        return False
    print("✓ Dependencies installed")
    return True


def check_storage() -> bool:
    """Load .env if present and validate the storage and scoring settings it provides."""
    env_path = Path(__file__).parent / ".env"
    if env_path.exists():
        from dotenv import load_dotenv
        load_dotenv(env_path)
        print(f"✓ Loaded {env_path}")
    else:
        print("NOTE: No .env file, using environment variables and defaults")

    backend = os.getenv("STORAGE_BACKEND", "local").lower()
    if backend == "azure":
        missing = [
            name for name in ("AZURE_STORAGE_CONNECTION_STRING", "AZURE_CONTAINER_NAME")
            if not os.getenv(name)
        ]
        if missing:
            print(f"ERROR: STORAGE_BACKEND=azure requires {' and '.join(missing)}")
            return False
        print(f"✓ Recordings -> Azure container {os.getenv('AZURE_CONTAINER_NAME')}")
    elif backend == "local":
        storage_dir = Path(os.getenv("STORAGE_DIR", "storage/media"))
        storage_dir.mkdir(parents=True, exist_ok=True)
        print(f"✓ Recordings -> {storage_dir.resolve()}")
    else:
        print(f"ERROR: Unknown STORAGE_BACKEND '{backend}' (expected local or azure)")
        return False

    if os.getenv("GEMINI_API_KEY"):
        print("✓ Answer scoring enabled")
    else:
        print("NOTE: GEMINI_API_KEY not set, POST .../score will return 503")
    return True


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Interview Recorder - Backend Server")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("UVICORN_RELOAD", "false").lower() == "true",
        help="Restart on code changes (development only)"
    )
    return parser.parse_args()


def main():
    args = parse_args()
    banner("Interview Recorder - Backend Server")

    if not check_dependencies() or not check_storage():
        sys.exit(1)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    print()
    print(f"API:        http://localhost:{args.port}  (docs at /docs)")
    print(f"Interviews: ws://localhost:{args.port}/ws/interview/{{interview_id}}?candidate_id=...")
    print(f"Reload:     {'on' if args.reload else 'off'}")
    print()

    import uvicorn
    uvicorn.run(
        "interview_recorder.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
        timeout_graceful_shutdown=5
    )


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        banner("Server stopped")
    except Exception as e:
        banner(f"ERROR: {e}")
        sys.exit(1)
