"""HTTP adapter exposing the messaging core."""
