import os
import sys
import pathlib

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2] / 'src'))

from image_models import CompressedImage
from output_saving_utils import log_processed_file, output_file_name, save_compressed_image


def test_output_file_name_follows_output_type():
    assert output_file_name(CompressedImage(b"", "image/jpeg", "shot.png")) == "shot.jpg"
    assert output_file_name(CompressedImage(b"", "image/webp", "pic.webp")) == "pic.webp"
    assert output_file_name(CompressedImage(b"", "image/jpeg", "README")) == "README.jpg"


def test_save_compressed_image(tmp_path):
    output_dir = tmp_path / 'out'
    image = CompressedImage(data=b"\xff\xd8payload", mime_type="image/jpeg", file_name="evidence.png")

    result = save_compressed_image(image, str(output_dir))

    assert result == str(output_dir / 'evidence.jpg')
    assert (output_dir / 'evidence.jpg').read_bytes() == image.data


def test_log_processed_file(tmp_path):
    log_file = tmp_path / 'logs' / 'log.txt'
    image = CompressedImage(
        data=b"x" * 100, mime_type="image/jpeg", file_name="big.jpg", quality=0.5, attempts=3, shortfall=True
    )

    log_processed_file(str(log_file), 'big.jpg', 4000, image)
    log_processed_file(str(log_file), 'big.jpg', 4000, image)

    text = log_file.read_text()
    assert 'big.jpg' in text
    assert '4000 -> 100 bytes' in text
    assert '0.50 after 3 attempts' in text
    assert 'over budget' in text
    assert text.count('Processed File') == 2
    assert os.path.isdir(tmp_path / 'logs')


def test_log_processed_file_unchanged_image(tmp_path):
    log_file = tmp_path / 'log.txt'
    log_processed_file(str(log_file), 'small.png', 10, CompressedImage(b"x" * 10, "image/png", "small.png"))
    text = log_file.read_text()
    assert 'unchanged after 0 attempts' in text
    assert 'over budget' not in text
