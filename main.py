"""CLI entrypoint for the stream timelapse recorder."""

from timelapse_capture.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
