"""Leave balances, requests and approvals."""
