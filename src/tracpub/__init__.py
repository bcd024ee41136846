"""tracpub: publish a tree of Markdown documents to a Trac wiki."""

__version__ = "0.3.0"
