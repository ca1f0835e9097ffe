# Importing the package registers the built-in evidence sources
from . import public_web  # noqa: F401
from . import people_search  # noqa: F401
