#!/usr/bin/env python
"""
Command line entry point for the HealthApp backend.

Besides the stock Django commands this exposes the app's own, e.g.::

    python manage.py generate_field_key   # new FIELD_ENCRYPTION_KEY
    python manage.py createsuperuser      # the only way to create an admin
"""
import os
import sys


def main() -> None:
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'healthapp.settings')
    try:
        from django.core.management import execute_from_command_line  # type: ignore
    except ImportError as exc:
        raise ImportError(
            "Couldn't import Django. Install the project with "
            "`pip install -e .` inside an active virtual environment."
        ) from exc
    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
