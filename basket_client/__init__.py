"""basket-client: GraphQL API client and cart sync agent for basket-server."""
