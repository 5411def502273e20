import logging
import sys


def _run() -> int:
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )

    try:
        from notekeeper.api.server import run
    except ModuleNotFoundError as exc:
        if exc.name in {"fastapi", "uvicorn", "googleapiclient", "google"}:
            print(f"Missing dependency '{exc.name}'.")
            print("Install the project first: pip install -e .")
            return 1
        raise

    run()
    return 0


if __name__ == "__main__":
    raise SystemExit(_run())
