"""Prepare receipt photos for upload to the image parser."""

import io

MAX_IMAGE_DIMENSION = 2000  # Resize if either dimension exceeds this
JPEG_QUALITY = 90


def resize_image_bytes(image_bytes: bytes, max_dimension: int = MAX_IMAGE_DIMENSION) -> bytes:
    """
    Normalize a photo to an upright JPEG no larger than max_dimension.

    Args:
        image_bytes: Image data as bytes (any format Pillow can read)
        max_dimension: Maximum allowed dimension (width or height)

    Returns:
        JPEG bytes, resized if necessary

    Raises:
        PIL.UnidentifiedImageError: if the bytes are not an image
    """
    from PIL import Image, ImageOps

    img = Image.open(io.BytesIO(image_bytes))

    # Phone photos carry their rotation in EXIF; bake it in before resizing.
    img = ImageOps.exif_transpose(img)

    width, height = img.size
    if width > max_dimension or height > max_dimension:
        # Calculate new dimensions while maintaining aspect ratio
        if width > height:
            new_width = max_dimension
            new_height = int(height * (max_dimension / width))
        else:
            new_height = max_dimension
            new_width = int(width * (max_dimension / height))
        img = img.resize((new_width, new_height), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    img.convert("RGB").save(buffer, format="JPEG", quality=JPEG_QUALITY)
    return buffer.getvalue()
