"""GFS wind tile server: fetch, convert, tile and publish upper-air winds."""

__version__ = "0.1.0"
