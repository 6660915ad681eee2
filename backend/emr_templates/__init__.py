"""Clinical template schema builder: schema model, selector store, visibility rules and version lifecycle."""

__version__ = "1.0.0"
