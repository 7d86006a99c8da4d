"""Market data source: Polymarket Gamma and CLOB REST clients."""
