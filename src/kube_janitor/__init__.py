"""kube-janitor: reaps failed, evicted and crash-looping pods from a cluster."""

__version__ = "1.0.0"
