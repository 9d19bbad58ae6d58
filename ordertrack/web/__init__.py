"""JSON API for OrderTrack."""
