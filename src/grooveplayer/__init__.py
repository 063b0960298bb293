"""grooveplayer: drum MIDI analysis and looped sample playback."""
__version__ = "0.1.0"
