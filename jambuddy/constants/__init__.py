"""Constants for Jam Buddy.

This package contains three sets of constants:

- ``jambuddy.constants.pulses`` - Pulse-based timing (internal transport use)
- ``jambuddy.constants.gm_drums`` - General MIDI drum and metronome notes
- ``jambuddy.constants.velocity`` - MIDI velocity defaults per voice
"""
