"""``python -m clawview`` entry point (used for detached probe runs)."""

from clawview.cli.app import app

if __name__ == "__main__":
    app(prog_name="clawview")
