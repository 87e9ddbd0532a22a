"""Core processing stages for roadgrade."""
