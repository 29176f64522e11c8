"""
License activation and status.

A license key is bound to the deployment domain through a server hash and
verified against the remote license server. Activation applies the package's
feature-flag preset.
"""
