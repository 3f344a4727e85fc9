"""HTTP boundary: contracts, routers, CORS and error mapping."""
