import io
import os
import sys

import numpy as np
import pytest
from PIL import Image

sys.path.append(os.path.join(os.path.dirname(__file__), "src"))

from logger import configure_logging


def pytest_configure():
    configure_logging()


def render_image(width, height, fmt="JPEG", mode="RGB", noise=True, seed=0, **save_kwargs):
    """Encode a synthetic image and return its bytes.

    Random noise barely compresses, which makes budgets hard to meet; a
    gradient compresses to almost nothing.
    """
    if noise:
        rng = np.random.default_rng(seed)
        channels = len(mode)
        shape = (height, width) if channels == 1 else (height, width, channels)
        image = Image.fromarray(rng.integers(0, 256, size=shape, dtype=np.uint8))
    else:
        image = Image.linear_gradient("L").resize((width, height)).convert(mode)

    if fmt == "JPEG":
        save_kwargs.setdefault("quality", 95)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **save_kwargs)
    return buffer.getvalue()


@pytest.fixture
def make_image():
    """Factory fixture wrapping ``render_image``."""
    return render_image


@pytest.fixture
def noise_jpeg():
    return render_image(800, 800)


@pytest.fixture
def small_png():
    return render_image(300, 200, fmt="PNG", noise=False)
