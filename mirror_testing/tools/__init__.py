"""Stand-alone helpers shared by the recorder and player."""
