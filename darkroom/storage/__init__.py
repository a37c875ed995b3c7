"""Storage backends that fetch source images, their shared types, an HTTP client and circuit breakers."""