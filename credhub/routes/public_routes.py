from flask import Blueprint, render_template, redirect, url_for, flash, request

from credhub.routes.locale import register_locale, preferred_locale
from credhub.services.verification import VerificationService

root_bp = Blueprint('root', __name__)
public_bp = Blueprint('public', __name__, url_prefix='/<locale>')
register_locale(public_bp)


@root_bp.route('/')
def root():
    return redirect(url_for('public.index', locale=preferred_locale()))


@public_bp.route('/')
def index():
    return render_template('index.html')


@public_bp.route('/verify', methods=['GET', 'POST'])
def verify():
    if request.method == 'POST':
        upload = request.files.get('file')
        if upload is not None and upload.filename:
            try:
                result = VerificationService.verify_by_file(upload, request=request)
            except ValueError as e:
                flash(str(e))
                return render_template('verify.html'), 400
            return render_template('verify_result.html', result=result)

        verification_id = (request.form.get('verification_id') or '').strip()
        if not verification_id:
            flash('Enter a verification ID or upload a certificate file.')
            return render_template('verify.html'), 400
        return redirect(url_for('public.verify_result', verification_id=verification_id))

    return render_template('verify.html')


@public_bp.route('/verify/<verification_id>')
def verify_result(verification_id):
    result = VerificationService.verify_by_id(verification_id, request=request)
    status = 200 if result['certificate'] is not None else 404
    return render_template('verify_result.html', result=result), status
