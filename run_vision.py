import sys

from retro_vision.app import main


if __name__ == "__main__":
    sys.exit(main())
