"""
Operator control loop: configuration, reconciler, poller and the
suspension registry.
"""
