"""Plugin manifests, the handler registry and the external plugin protocol."""
