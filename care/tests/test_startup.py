import os
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _run(*args):
    env = {**os.environ, 'DJANGO_SETTINGS_MODULE': 'healthapp.settings'}
    return subprocess.run([sys.executable, *args], cwd=PROJECT_ROOT, env=env,
                          capture_output=True, text=True, timeout=120)


def test_system_check_passes_in_a_fresh_interpreter():
    result = _run('manage.py', 'check')
    assert result.returncode == 0, result.stderr


def test_token_service_imports_before_rest_framework_views():
    # services pull in care.exceptions before DRF's view machinery is loaded
    result = _run('-c', 'import django; django.setup(); '
                        'import care.services.tokens; import rest_framework.views')
    assert result.returncode == 0, result.stderr
