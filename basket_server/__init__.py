"""basket-server: GraphQL catalog and per-user cart service with live updates."""
