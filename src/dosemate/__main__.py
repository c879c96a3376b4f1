"""Punto de entrada de la app Kivy de DoseMate."""

from __future__ import annotations

from dosemate.app import run_app
from dosemate.logging_setup import configure_logging


def main() -> int:
    """Run app entrypoint."""
    configure_logging()
    try:
        return run_app()
    except ImportError as exc:
        print(f"No se pudo iniciar Kivy: {exc}")
        print("Instala dependencias de GUI: pip install 'dosemate[gui]'")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
