"""specforge - SQL schema and rule scenario compilers with a specification runtime."""

__version__ = "0.1.0"
