"""
Cardio Monitor — camera-based cardiovascular screening pipeline.
Sit in front of the webcam; the forehead's green-channel intensity yields a
photoplethysmography (PPG) signal from which beats, RR intervals, HRV,
an approximate blood pressure and a cardiovascular risk score are derived.
"""

__version__ = "0.1.0"
__author__ = "cardio_monitor"
