"""Chain configuration, wire hash types, sortable ETL buffers and direct sentry clients."""

__version__ = "0.1.0"