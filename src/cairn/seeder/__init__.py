from .base import BaseSeeder
from .registry import SeederRegistry

# Importing the sub-modules registers their seeders; priority decides the order.

# Core (Priority 0-100)
from .core import access

# Demo (Priority 500+)
from .demo import editors
