"""operator_plane: drives provider components for messaging and event channels.

Core pieces:
    execution      catalog, dual-mode invoker, retry policy, dead letters, plans
    messaging      render → encode → send egress pipeline, ingress bridge
    subscriptions  ensure/renew/delete service, file store, renewal scheduler
    events         timer discovery, polling scheduler, event routing
"""

__version__ = "0.1.0"
