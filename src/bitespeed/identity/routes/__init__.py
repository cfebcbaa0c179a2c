from . import contacts, system  # noqa: F401
