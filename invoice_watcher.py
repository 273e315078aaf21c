#!/usr/bin/env python3
"""
Receipt Folder Watcher - Automatic Capture

Watches a folder for new receipt/invoice files (images, PDFs, .txt), sends
each one through the extraction API and saves the parsed records.

Usage:
    python invoice_watcher.py --watch-folder ./receipts-incoming
"""

import argparse
import json
import mimetypes
import time
from datetime import datetime
from pathlib import Path

import requests
from loguru import logger
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

# Configuration
API_BASE_URL = "http://127.0.0.1:8000"
SUPPORTED_SUFFIXES = {".png", ".jpg", ".jpeg", ".webp", ".pdf", ".txt"}


class ReceiptHandler(FileSystemEventHandler):
    """Handles new receipt file events"""

    def __init__(self, watch_folder, processed_folder, failed_folder, api_url=API_BASE_URL):
        self.watch_folder = Path(watch_folder)
        self.processed_folder = Path(processed_folder)
        self.failed_folder = Path(failed_folder)
        self.api_url = api_url.rstrip("/")
        self.processed_files = set()

        # Create folders if they don't exist
        self.processed_folder.mkdir(parents=True, exist_ok=True)
        self.failed_folder.mkdir(parents=True, exist_ok=True)

    def on_created(self, event):
        """Called when a file is created in the watched folder"""
        if event.is_directory:
            return

        file_path = Path(event.src_path)
        if file_path.suffix.lower() not in SUPPORTED_SUFFIXES:
            return

        # Avoid processing the same file multiple times
        if file_path in self.processed_files:
            return

        # Small delay to ensure file is fully written
        time.sleep(1)

        # Check if file still exists (might have been moved)
        if not file_path.exists():
            return

        self.processed_files.add(file_path)
        self.process_file(file_path)

    def process_file(self, file_path: Path) -> list:
        """Extract a file through the API and save every parsed record"""
        logger.info("New receipt detected", file=file_path.name, size_bytes=file_path.stat().st_size)
        mime_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
        saved = []

        try:
            with open(file_path, "rb") as f:
                files = {"files": (file_path.name, f, mime_type)}
                response = requests.post(f"{self.api_url}/invoices/extract", files=files, timeout=120)

            if response.status_code != 200:
                self.handle_error(file_path, f"Extraction failed ({response.status_code}): {_detail(response)}")
                return saved

            for record in response.json()["invoices"]:
                r = requests.post(f"{self.api_url}/invoices", json=record, timeout=60)
                if r.status_code not in (201, 202):
                    self.handle_error(file_path, f"Save failed ({r.status_code}): {_detail(r)}", saved)
                    return saved
                body = r.json()
                if not body.get("synced", True):
                    logger.warning("Saved locally only", file=file_path.name, warning=body.get("warning"))
                saved.append(record)

        except requests.exceptions.Timeout:
            self.handle_error(file_path, "Timeout", saved)
            return saved
        except requests.exceptions.RequestException as e:
            self.handle_error(file_path, str(e), saved)
            return saved

        self.handle_success(file_path, saved)
        return saved

    def handle_success(self, file_path: Path, records: list):
        for record in records:
            logger.info(
                "Receipt saved",
                vendor=record.get("vendorName"),
                date=record.get("invoiceDate"),
                total=record.get("totalAmount"),
            )

        dest_path = self.processed_folder / file_path.name
        file_path.rename(dest_path)
        self.log_processing(file_path.name, "saved", records, dest_path)

    def handle_error(self, file_path: Path, error_msg: str, saved: list = None):
        """
        Move the file to the failed folder.

        Records in `saved` were already stored before the failure; the log
        entry lists them with status "partial" so a manual retry can skip them.
        """
        saved = saved or []
        logger.error(f"Processing failed for {file_path.name}: {error_msg}")
        if saved:
            logger.warning("Some records were already saved", file=file_path.name, saved=len(saved))

        # Move to failed for manual capture
        dest_path = self.failed_folder / file_path.name
        file_path.rename(dest_path)
        self.log_processing(file_path.name, "partial" if saved else "failed", saved, dest_path, error=error_msg)

    def log_processing(self, filename: str, status: str, records: list, dest_path: Path, error: str = None):
        """Append one entry to the JSON processing log"""
        log_file = self.watch_folder.parent / "processing_log.json"

        if log_file.exists():
            with open(log_file, "r") as f:
                log_data = json.load(f)
        else:
            log_data = []

        log_data.append({
            "timestamp": datetime.now().isoformat(),
            "filename": filename,
            "status": status,
            "invoices": records,
            "error": error,
            "destination": str(dest_path),
        })

        with open(log_file, "w") as f:
            json.dump(log_data, f, indent=2)


def _detail(response) -> str:
    try:
        return str(response.json().get("detail", response.text))
    except ValueError:
        return response.text


def main():
    parser = argparse.ArgumentParser(
        description="Watch a folder for receipts and capture them automatically"
    )
    parser.add_argument(
        "--watch-folder",
        default="./receipts-incoming",
        help="Folder to watch for new receipts (default: ./receipts-incoming)"
    )
    parser.add_argument(
        "--processed-folder",
        default="./receipts-processed",
        help="Folder for captured receipts (default: ./receipts-processed)"
    )
    parser.add_argument(
        "--failed-folder",
        default="./receipts-failed",
        help="Folder for receipts that could not be captured (default: ./receipts-failed)"
    )
    parser.add_argument(
        "--api-url",
        default=API_BASE_URL,
        help=f"API base URL (default: {API_BASE_URL})"
    )

    args = parser.parse_args()

    watch_folder = Path(args.watch_folder)
    watch_folder.mkdir(parents=True, exist_ok=True)

    event_handler = ReceiptHandler(
        args.watch_folder,
        args.processed_folder,
        args.failed_folder,
        api_url=args.api_url,
    )
    observer = Observer()
    observer.schedule(event_handler, str(watch_folder), recursive=False)
    observer.start()

    logger.info(
        "Receipt watcher started",
        watching=str(watch_folder.absolute()),
        processed=str(Path(args.processed_folder).absolute()),
        failed=str(Path(args.failed_folder).absolute()),
        api=args.api_url,
    )

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Stopping watcher")
        observer.stop()

    observer.join()


if __name__ == "__main__":
    main()
