# src/exam_tracker/__main__.py

from .cli.main import main

main()
