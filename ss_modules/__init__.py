"""
Capture Stages Package

Building blocks used by capture_orchestrator.py to capture a page as a
sequence of viewport tiles.

Modules:
- timing: Delays, cancellation, rate limiting, stability and progress
- planner: Viewport offset planning and height capping
- infinite_scroll: Infinite scroll detection
- classifier: Fixed/sticky element classification
- sticky: Sticky element neutralization and restoration
- integrity: Before/after DOM structure hash chain
- compare: Image similarity for dual mode captures
"""

# Import timing helpers
from .timing import (
    now_ms,
    sleep_ms,
    CancellationToken,
    CaptureRateLimiter,
    calculate_lazy_timeout,
    wait_for_stability,
    ProgressTracker,
)

# Import planning and detection
from .planner import ViewportPlanner
from .infinite_scroll import InfiniteScrollDetector

# Import sticky element handling
from .classifier import ElementClassifier, default_action, get_justification
from .sticky import StickyElementHandler

# Import integrity and comparison
from .integrity import IntegrityHashChain, element_signature, visible_signature
from .compare import compare_images, compare_image_regions, top_viewport_similarity

__all__ = [
    # Timing
    'now_ms',
    'sleep_ms',
    'CancellationToken',
    'CaptureRateLimiter',
    'calculate_lazy_timeout',
    'wait_for_stability',
    'ProgressTracker',
    # Planning
    'ViewportPlanner',
    'InfiniteScrollDetector',
    # Sticky
    'ElementClassifier',
    'default_action',
    'get_justification',
    'StickyElementHandler',
    # Integrity
    'IntegrityHashChain',
    'element_signature',
    'visible_signature',
    # Compare
    'compare_images',
    'compare_image_regions',
    'top_viewport_similarity',
]

__version__ = '0.1.0'
