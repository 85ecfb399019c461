import io
import logging
from datetime import datetime, timedelta

import pandas as pd
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from sqlalchemy import func

from credhub.models import db, ActivityLog, LogCategory, LogStatus

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ('csv', 'xlsx')
EXPORT_LIMIT = 10000


def parse_day(value, field):
    try:
        return datetime.strptime(value, '%Y-%m-%d')
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {field}: expected YYYY-MM-DD")


class AuditService:

    @staticmethod
    def build_query(filters=None):
        """
        Filters: category, status, action, user_id, start_date, end_date
        (inclusive, YYYY-MM-DD) and search (case-insensitive match on details).
        """
        filters = filters or {}
        query = ActivityLog.query

        if filters.get('category'):
            query = query.filter(ActivityLog.category == filters['category'])
        if filters.get('status'):
            query = query.filter(ActivityLog.status == filters['status'])
        if filters.get('action'):
            query = query.filter(ActivityLog.action == filters['action'])
        if filters.get('user_id'):
            query = query.filter(ActivityLog.user_id == int(filters['user_id']))
        if filters.get('start_date'):
            query = query.filter(ActivityLog.created_at >= parse_day(filters['start_date'], 'start_date'))
        if filters.get('end_date'):
            # Include the whole end day
            end = parse_day(filters['end_date'], 'end_date') + timedelta(days=1)
            query = query.filter(ActivityLog.created_at < end)
        if filters.get('search'):
            query = query.filter(ActivityLog.details.ilike(f"%{filters['search']}%"))

        return query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())

    @staticmethod
    def list_logs(filters=None, page=1, limit=20):
        query = AuditService.build_query(filters)
        total = query.count()
        logs = query.offset((page - 1) * limit).limit(limit).all()
        return {
            'logs': logs,
            'pagination': {
                'total': total,
                'page': page,
                'limit': limit,
                'pages': -(-total // limit) if limit else 0,
            },
        }

    @staticmethod
    def _count(*criteria):
        return db.session.query(func.count(ActivityLog.id)).filter(*criteria).scalar() or 0

    @staticmethod
    def get_stats(now=None):
        now = now or datetime.utcnow()
        today = datetime(now.year, now.month, now.day)
        yesterday = today - timedelta(days=1)
        # Weeks start on Sunday
        week_start = today - timedelta(days=(today.weekday() + 1) % 7)
        month_start = datetime(now.year, now.month, 1)

        count = AuditService._count
        created = ActivityLog.created_at

        daily = []
        for offset in range(6, -1, -1):
            day = today - timedelta(days=offset)
            daily.append({
                'date': day.strftime('%Y-%m-%d'),
                'count': count(created >= day, created < day + timedelta(days=1)),
            })

        def category_breakdown(category):
            return {
                'total': count(ActivityLog.category == category),
                'successful': count(ActivityLog.category == category, ActivityLog.status == LogStatus.SUCCESS),
                'failed': count(ActivityLog.category == category, ActivityLog.status == LogStatus.FAILURE),
            }

        recent_failures = (ActivityLog.query
                           .filter(ActivityLog.category == LogCategory.VERIFICATION,
                                   ActivityLog.status == LogStatus.FAILURE)
                           .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
                           .limit(5).all())

        per_category = (db.session.query(ActivityLog.category, func.count(ActivityLog.id).label('count'))
                        .group_by(ActivityLog.category)
                        .order_by(func.count(ActivityLog.id).desc())
                        .all())

        return {
            'overview': {
                'total': count(),
                'today': count(created >= today),
                'yesterday': count(created >= yesterday, created < today),
                'thisWeek': count(created >= week_start),
                'thisMonth': count(created >= month_start),
            },
            'dailyActivity': daily,
            'verification': category_breakdown(LogCategory.VERIFICATION),
            'blockchain': category_breakdown(LogCategory.BLOCKCHAIN),
            'recentFailures': [log.to_dict() for log in recent_failures],
            'categories': [{'category': row.category, 'count': row.count} for row in per_category],
        }

    @staticmethod
    def _export_rows(filters=None):
        rows = []
        for log in AuditService.build_query(filters).limit(EXPORT_LIMIT):
            rows.append({
                "Date": log.created_at.strftime('%Y-%m-%d %H:%M:%S') if log.created_at else '',
                "Action": log.action,
                "Category": log.category,
                "Status": log.status,
                "Details": log.details or '',
                "User": log.user.email if log.user else '',
                "Institution": log.institution.name if log.institution else '',
                "Certificate": log.certificate.title if log.certificate else '',
                "IP Address": log.ip_address or '',
                "User Agent": log.user_agent or '',
            })
        return rows

    @staticmethod
    def export_logs(filters=None, fmt='csv'):
        """
        Export the filtered log list. Returns (BytesIO, mimetype, filename).
        """
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt}")

        columns = ["Date", "Action", "Category", "Status", "Details", "User",
                   "Institution", "Certificate", "IP Address", "User Agent"]
        df = pd.DataFrame(AuditService._export_rows(filters), columns=columns)
        stamp = datetime.utcnow().strftime('%Y%m%d_%H%M')
        output = io.BytesIO()

        if fmt == 'csv':
            output.write(df.to_csv(index=False).encode('utf-8'))
            output.seek(0)
            return output, 'text/csv', f'activity_logs_{stamp}.csv'

        writer = pd.ExcelWriter(output, engine='openpyxl')
        df.to_excel(writer, sheet_name='Activity_Logs', index=False)
        AuditService._format_excel_sheet(writer, df, 'Activity_Logs')
        writer.close()
        output.seek(0)
        logger.info(f"Exported {len(df)} activity log rows to xlsx")
        return (output,
                'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
                f'activity_logs_{stamp}.xlsx')

    @staticmethod
    def _format_excel_sheet(writer, df, sheet_name):
        """Bold header row and approximate column widths."""
        worksheet = writer.sheets[sheet_name]
        for idx, col in enumerate(df.columns):
            worksheet.cell(row=1, column=idx + 1).font = Font(bold=True)
            col_data = df[col].astype(str)
            max_len = col_data.map(len).max() if not col_data.empty else 0
            width = max(max_len, len(str(col))) + 2
            worksheet.column_dimensions[get_column_letter(idx + 1)].width = min(width, 50)
        worksheet.freeze_panes = 'A2'
