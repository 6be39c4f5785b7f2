"""
Landmark mapping tables for supported hand skeletons.

Each table maps a rig joint identifier to its MediaPipe landmark index.
Tables are plain data: adding a new skeleton means adding a table here,
never touching the normalizer.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping

# ============================================================================
# MediaPipe Landmark Indices
# ============================================================================

NUM_LANDMARKS = 21

WRIST = 0
THUMB_CMC, THUMB_MCP, THUMB_IP, THUMB_TIP = 1, 2, 3, 4
INDEX_MCP, INDEX_PIP, INDEX_DIP, INDEX_TIP = 5, 6, 7, 8
MIDDLE_MCP, MIDDLE_PIP, MIDDLE_DIP, MIDDLE_TIP = 9, 10, 11, 12
RING_MCP, RING_PIP, RING_DIP, RING_TIP = 13, 14, 15, 16
PINKY_MCP, PINKY_PIP, PINKY_DIP, PINKY_TIP = 17, 18, 19, 20


@dataclass(frozen=True)
class LandmarkMapping:
    """
    Joint identifier -> landmark index table for one skeleton type.

    Attributes:
        name: Short name used in configuration (e.g. "openxr")
        wrist: Joint identifier whose transform defines the hand-local frame
        joints: Mapping of joint identifier to landmark index (21 entries)
    """
    name: str
    wrist: str
    joints: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        if len(self.joints) != NUM_LANDMARKS:
            raise ValueError(
                f"Mapping '{self.name}' has {len(self.joints)} entries, "
                f"expected {NUM_LANDMARKS}"
            )
        if sorted(self.joints.values()) != list(range(NUM_LANDMARKS)):
            raise ValueError(
                f"Mapping '{self.name}' must cover landmark indices 0..{NUM_LANDMARKS - 1} exactly once"
            )

    def index_of(self, joint_id: str) -> int:
        """Landmark index for a joint, or -1 if the joint is not mapped."""
        return self.joints.get(joint_id, -1)


# OpenXR hand-tracking joints (XR_EXT_hand_tracking naming)
OPENXR_HAND = LandmarkMapping(
    name="openxr",
    wrist="XRHand_Wrist",
    joints={
        "XRHand_Wrist": WRIST,
        "XRHand_ThumbMetacarpal": THUMB_CMC,
        "XRHand_ThumbProximal": THUMB_MCP,
        "XRHand_ThumbDistal": THUMB_IP,
        "XRHand_ThumbTip": THUMB_TIP,
        "XRHand_IndexProximal": INDEX_MCP,
        "XRHand_IndexIntermediate": INDEX_PIP,
        "XRHand_IndexDistal": INDEX_DIP,
        "XRHand_IndexTip": INDEX_TIP,
        "XRHand_MiddleProximal": MIDDLE_MCP,
        "XRHand_MiddleIntermediate": MIDDLE_PIP,
        "XRHand_MiddleDistal": MIDDLE_DIP,
        "XRHand_MiddleTip": MIDDLE_TIP,
        "XRHand_RingProximal": RING_MCP,
        "XRHand_RingIntermediate": RING_PIP,
        "XRHand_RingDistal": RING_DIP,
        "XRHand_RingTip": RING_TIP,
        "XRHand_LittleProximal": PINKY_MCP,
        "XRHand_LittleIntermediate": PINKY_PIP,
        "XRHand_LittleDistal": PINKY_DIP,
        "XRHand_LittleTip": PINKY_TIP,
    },
)

# OVR hand-model skeleton. Hand_Thumb0 (trapezium) has no MediaPipe counterpart.
OVR_HAND = LandmarkMapping(
    name="ovr",
    wrist="Hand_WristRoot",
    joints={
        "Hand_WristRoot": WRIST,
        "Hand_Thumb1": THUMB_CMC,
        "Hand_Thumb2": THUMB_MCP,
        "Hand_Thumb3": THUMB_IP,
        "Hand_ThumbTip": THUMB_TIP,
        "Hand_Index1": INDEX_MCP,
        "Hand_Index2": INDEX_PIP,
        "Hand_Index3": INDEX_DIP,
        "Hand_IndexTip": INDEX_TIP,
        "Hand_Middle1": MIDDLE_MCP,
        "Hand_Middle2": MIDDLE_PIP,
        "Hand_Middle3": MIDDLE_DIP,
        "Hand_MiddleTip": MIDDLE_TIP,
        "Hand_Ring1": RING_MCP,
        "Hand_Ring2": RING_PIP,
        "Hand_Ring3": RING_DIP,
        "Hand_RingTip": RING_TIP,
        "Hand_Pinky1": PINKY_MCP,
        "Hand_Pinky2": PINKY_PIP,
        "Hand_Pinky3": PINKY_DIP,
        "Hand_PinkyTip": PINKY_TIP,
    },
)

MAPPINGS: Dict[str, LandmarkMapping] = {
    OPENXR_HAND.name: OPENXR_HAND,
    OVR_HAND.name: OVR_HAND,
}


def get_mapping(name: str) -> LandmarkMapping:
    """Look up a mapping table by its configuration name."""
    try:
        return MAPPINGS[name]
    except KeyError:
        raise ValueError(
            f"Unknown skeleton '{name}', expected one of {sorted(MAPPINGS)}"
        ) from None
