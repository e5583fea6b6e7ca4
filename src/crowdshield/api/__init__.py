"""HTTP surface for crowdshield services."""
