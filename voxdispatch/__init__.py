"""voxdispatch — routes voice transcripts to dynamically registered services."""
