import os

import qrcode


def generate_qr(data, path):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    img = qrcode.make(data)
    img.save(path)
    return path
