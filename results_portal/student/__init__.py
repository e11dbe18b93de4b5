from flask import Blueprint

bp = Blueprint('student', __name__)

from results_portal.student import routes
