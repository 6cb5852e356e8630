"""HTTP layer: app factory, routers, response envelope and dependency container."""
