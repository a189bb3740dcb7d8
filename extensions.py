"""Library instances kept apart from the application object.

Blueprints import them from here so that ``app.py`` can register the
blueprints without circular imports.
"""

from __future__ import annotations

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Not bound to an app yet; configuration is applied in app.py via init_app
limiter = Limiter(key_func=get_remote_address)
