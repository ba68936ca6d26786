"""Service layer: authorization, store access and ordering for each resource."""
