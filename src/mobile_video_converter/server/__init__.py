"""HTTP server exposing the conversion service to UI front-ends."""
