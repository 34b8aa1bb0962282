"""Conductor console entrypoint."""

from conductorAgent.cli import main

if __name__ == "__main__":
    main()
