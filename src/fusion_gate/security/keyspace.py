"""
Central place for Redis KEY NAMES.
Everything else only CALLS the functions here, so a key format change touches this file only.
"""

# ===== Fixed-window rate limit =====
# If Redis Cluster is used later, wrap the counter key in a hash tag:
# return f"rl:fw:{{{counter_key}}}"

def k_rate_limit(counter_key: str) -> str:
    """
    Key of one fixed-window counter.
    counter_key is already "<client_address>:<path>", e.g. rl:fw:203.0.113.10:/api/foo
    """
    return f"rl:fw:{counter_key}"