from django.core.management.base import BaseCommand
from Crypto.Random import get_random_bytes

from care.services.cipher import KEY_BYTES


class Command(BaseCommand):
    help = "Print a fresh random FIELD_ENCRYPTION_KEY (hex) for AES-256-GCM."

    def handle(self, *args, **opts):
        key = get_random_bytes(KEY_BYTES).hex()
        self.stdout.write(key)
        self.stderr.write(self.style.WARNING(
            "Records sealed with the previous key cannot be read with this one."
        ))
