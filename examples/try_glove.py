#!/usr/bin/env python3
"""
Interactive TrueTouch Test Script.

This script demonstrates the high-level TrueTouchGlove API.
Run it to scan for a glove, connect, and cycle through the actuators.
"""

import sys
import time
import logging
from pathlib import Path

# Add SDK to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from truetouch import ConnectionState, Finger, TrueTouchGlove, UpdateType

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)

CONNECT_TIMEOUT = 30.0  # seconds


def main():
    print("Initializing TrueTouch glove...")
    glove = TrueTouchGlove()
    glove.subscribe_state(lambda s: print(f"State: {s.name}"))
    glove.subscribe_errors(lambda e: print(f"Send failed: {e}"))
    glove.subscribe_latency(lambda ms: print(f"ACK latency: {ms:.1f} ms"))

    try:
        glove.start()

        print(f"\nWaiting up to {CONNECT_TIMEOUT:.0f}s for a glove (Ctrl+C to stop)...")
        start = time.time()
        while glove.get_connection_state() != ConnectionState.CONNECTED:
            if time.time() - start > CONNECT_TIMEOUT:
                print("No glove found! Is it powered on and advertising?")
                return
            time.sleep(0.1)

        print(f"Connected to {glove.connected_device_name} ({glove.connected_device_id})")

        print("\nPulsing each finger...")
        glove.set_pulse_duration_ms(20)
        for finger in Finger:
            glove.request_finger_update(finger, UpdateType.PULSE_SOLENOID)
            time.sleep(0.5)

        print("\nRamping ERM intensity on all fingers...")
        for intensity in (64, 128, 192, 255, 0):
            for finger in Finger:
                glove.request_finger_update(finger, UpdateType.SET_ERM, intensity)
            time.sleep(0.5)

        print("\nHolding index and middle solenoids for 1 second...")
        glove.request_finger_update(Finger.INDEX, UpdateType.ACTUATE_SOLENOID)
        glove.request_finger_update(Finger.MIDDLE, UpdateType.ACTUATE_SOLENOID)
        time.sleep(1.0)
        glove.request_finger_update(Finger.INDEX, UpdateType.RELEASE_SOLENOID)
        glove.request_finger_update(Finger.MIDDLE, UpdateType.RELEASE_SOLENOID)
        time.sleep(0.5)

    except KeyboardInterrupt:
        print("\nInterrupted by user.")
    finally:
        print("\nDisconnecting...")
        glove.close()
        print("Done.")

if __name__ == "__main__":
    main()
