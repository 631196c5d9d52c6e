#!/usr/bin/env python3

from flask import Flask, request, jsonify, send_file
from flask_cors import CORS
import os
import uuid
import logging
from werkzeug.utils import secure_filename
from pathlib import Path
from pydantic import ValidationError
from typing import Optional

# Add parent directory to path for imports
import sys
sys.path.append(str(Path(__file__).parent.parent))

from config_manager import ConfigManager
from models.api_models import BatchFillRequest, BatchFillResponse, FillRatesResponse
from models.config_models import (
    ConfigUpdateRequest,
    ConfigInquiryResponse,
    ConfigUpdateResponse
)
from src.services import MatchReportService, RateFillService, count_match_kinds

ALLOWED_EXTENSIONS = {'.xlsx', '.xlsm'}


class App:
    """Rate fill server: upload a draft and a target BOQ, download the filled target"""

    def __init__(self, config_file_path: Optional[str] = None, storage_root: Optional[str] = None):
        self.app = Flask(__name__)
        CORS(self.app)

        # Setup directories - repo root only
        self.app_root = Path(__file__).parent.parent.absolute()
        storage = Path(storage_root) if storage_root else self.app_root / 'storage'

        # Folder setup
        self.upload_folder = str(storage / 'uploads')
        self.output_folder = str(storage / 'output')
        for folder in [self.upload_folder, self.output_folder]:
            os.makedirs(folder, exist_ok=True)

        # Configuration manager
        self.config_manager = ConfigManager(config_file_path)
        self.report_service = MatchReportService()
        self._reload_service()

        # Setup Flask routes
        self.setup_routes()

    def _reload_service(self):
        """Rebuild the rate fill service with the current configuration"""
        configs = self.config_manager.get_all_configs()
        self.rate_fill_service = RateFillService(configs.matching, configs.batch)
        logging.info("Rate fill service loaded with current configuration")

    def _save_upload(self, field: str) -> str:
        file = request.files[field]
        filename = secure_filename(file.filename or '')
        if not filename or Path(filename).suffix.lower() not in ALLOWED_EXTENSIONS:
            raise ValueError(f"'{field}' must be an .xlsx file")
        filepath = os.path.join(self.upload_folder, f"{uuid.uuid4().hex[:8]}_{filename}")
        file.save(filepath)
        return filepath

    def _upload_path(self, path: str) -> str:
        """Resolve a client supplied path; only files inside the upload folder are accepted"""
        upload_root = Path(self.upload_folder).resolve()
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = upload_root / candidate
        resolved = candidate.resolve()
        if resolved != upload_root and upload_root not in resolved.parents:
            raise ValueError(f"'{path}' is outside the upload folder")
        return str(resolved)

    def setup_routes(self):
        """Setup Flask routes"""

        @self.app.route('/api/fill-rates', methods=['POST'])
        def fill_rates_route():
            """Fill blank rates/amounts of the uploaded target from the uploaded draft"""
            if 'draft' not in request.files or 'target' not in request.files:
                return jsonify({'success': False, 'error': 'Both draft and target files are required'})

            try:
                draft_path = self._save_upload('draft')
                target_path = self._save_upload('target')
            except ValueError as e:
                return jsonify({'success': False, 'error': str(e)})

            try:
                sheet_name = request.form.get('sheet_name') or None
                output_name = Path(self.rate_fill_service.default_output_path(target_path)).name
                output_path = os.path.join(self.output_folder, output_name)

                run = self.rate_fill_service.fill_rates_file(draft_path, target_path, output_path, sheet_name)
                result = run.result

                response = FillRatesResponse(
                    success=result.success,
                    message=result.message,
                    matched_count=result.matched_count,
                    total_count=result.total_count,
                    match_kinds=count_match_kinds(run.outcomes),
                    logs=result.logs
                )
                if result.success and run.output_path:
                    response.filename = output_name
                    response.download_url = f"/api/download/{output_name}"

                    if run.outcomes and request.form.get('report', '').lower() in ('1', 'true', 'yes'):
                        report_name = f"{Path(output_name).stem}_report.xlsx"
                        self.report_service.export(run.outcomes, os.path.join(self.output_folder, report_name))
                        response.report_url = f"/api/download/{report_name}"

                return jsonify(response.model_dump())

            except Exception as e:
                logging.error(f"Error filling rates: {e}", exc_info=True)
                return jsonify({'success': False, 'error': str(e)})

        @self.app.route('/api/fill-rates/batch', methods=['POST'])
        def fill_rates_batch_route():
            """Fill many uploaded target files from one uploaded draft"""
            try:
                batch_request = BatchFillRequest(**(request.get_json() or {}))
                draft_path = self._upload_path(batch_request.draft_path)
                target_paths = [self._upload_path(path) for path in batch_request.target_paths]
            except (ValidationError, ValueError) as e:
                return jsonify({'success': False, 'error': str(e)}), 400

            try:
                runs = self.rate_fill_service.fill_rates_batch(
                    draft_path,
                    target_paths,
                    output_dir=self.output_folder,
                    max_concurrency=batch_request.max_concurrency
                )
                results = [
                    {
                        'filename': Path(run.output_path).name if run.output_path else None,
                        'sheet_name': run.sheet_name,
                        'message': run.result.message,
                        'matched_count': run.result.matched_count,
                        'total_count': run.result.total_count
                    }
                    for run in runs
                ]
                return jsonify(BatchFillResponse(
                    success=True,
                    processed=len(runs),
                    failed=len(batch_request.target_paths) - len(runs),
                    results=results
                ).model_dump())

            except Exception as e:
                logging.error(f"Error in batch fill: {e}", exc_info=True)
                return jsonify({'success': False, 'error': str(e)})

        @self.app.route('/api/config/inquiry', methods=['GET'])
        def config_inquiry_route():
            """Get current configuration"""
            try:
                configs = self.config_manager.get_all_configs()

                return ConfigInquiryResponse(
                    success=True,
                    configs=configs
                ).model_dump(mode='json')

            except Exception as e:
                logging.error(f"Error getting config: {e}", exc_info=True)
                return ConfigInquiryResponse(
                    success=False,
                    error=str(e)
                ).model_dump(mode='json')

        @self.app.route('/api/config/update', methods=['POST'])
        def config_update_route():
            """Update one configuration section"""
            try:
                data = request.get_json()

                update_request = ConfigUpdateRequest(**data)
                success = self.config_manager.update_config(update_request)

                if success:
                    self._reload_service()

                    return ConfigUpdateResponse(
                        success=True,
                        message="Configuration updated successfully",
                        updated_section=update_request.section.value
                    ).model_dump()
                else:
                    return ConfigUpdateResponse(
                        success=False,
                        message="Failed to update configuration",
                        error="Update operation failed"
                    ).model_dump()

            except (ValidationError, TypeError) as e:
                logging.error(f"Error updating config: {e}", exc_info=True)
                return ConfigUpdateResponse(
                    success=False,
                    message="Configuration update failed",
                    error=str(e)
                ).model_dump()

        @self.app.route('/api/config/reset', methods=['POST'])
        def config_reset_route():
            """Reset configuration to defaults"""
            if self.config_manager.reset_to_defaults():
                self._reload_service()
                return ConfigUpdateResponse(success=True, message="Configuration reset to defaults").model_dump()
            return ConfigUpdateResponse(
                success=False,
                message="Failed to reset configuration",
                error="Reset operation failed"
            ).model_dump()

        @self.app.route('/api/download/<filename>')
        def download_file(filename):
            """Download a filled BOQ or report file"""
            filepath = os.path.join(self.output_folder, secure_filename(filename))
            if os.path.exists(filepath):
                return send_file(filepath, as_attachment=True)
            return jsonify({'error': 'File not found'}), 404

    def run(self, host: str = 'localhost', port: int = 5000, debug: bool = True):
        """Run the Flask application"""
        logging.info(f"BOQ Rate Fill Server starting on http://{host}:{port}")
        self.app.run(host=host, port=port, debug=debug)


if __name__ == '__main__':
    processor = App()
    processor.run()
