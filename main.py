from __future__ import annotations

from pathlib import Path
import argparse
import logging
import sys

from simpletimer.settings import default_settings_path


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Desktop countdown timer with global hotkeys and tray icon")
    parser.add_argument(
        "--settings",
        default=str(default_settings_path()),
        help="Path to settings JSON file (default: ~/.simpletimer/settings.json)",
    )
    parser.add_argument(
        "--log",
        default=str(default_settings_path().parent / "simpletimer.log"),
        help="Path to app log file (default: ~/.simpletimer/simpletimer.log)",
    )
    parser.add_argument(
        "--minutes",
        type=int,
        default=None,
        help="Set the timer length in minutes (saved like an edit in the window)",
    )
    parser.add_argument(
        "--start",
        action="store_true",
        help="Start the countdown as soon as the window is shown",
    )
    args = parser.parse_args(argv)
    if args.minutes is not None and args.minutes <= 0:
        parser.error("--minutes must be a positive integer")
    return args


def setup_logging(log_path: Path) -> None:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.handlers.clear()

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(Path(args.log))
    logging.getLogger("simpletimer").info(
        "app_start settings=%s log=%s minutes=%s start=%s",
        args.settings,
        args.log,
        args.minutes,
        args.start,
    )
    from simpletimer.ui_qt import SimpleTimerQtApp

    app = SimpleTimerQtApp(Path(args.settings), minutes=args.minutes, autostart=args.start)
    return app.run()


if __name__ == "__main__":
    sys.exit(main())
