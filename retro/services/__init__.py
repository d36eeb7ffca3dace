"""Board services: item store, like ledger, analyst and aggregation scheduler."""
