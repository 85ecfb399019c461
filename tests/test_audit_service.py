import io
from datetime import datetime

import pandas as pd
import pytest
from openpyxl import load_workbook

from credhub.models import db, ActivityLog, LogAction, LogCategory, LogStatus
from credhub.services.audit_service import AuditService

NOW = datetime(2024, 5, 15, 12, 0)  # a Wednesday


def add_log(created_at, category=LogCategory.AUTH, status=LogStatus.SUCCESS, action=LogAction.LOGIN,
            details=None, user_id=None):
    log = ActivityLog(action=action, category=category, status=status, details=details,
                      user_id=user_id, created_at=created_at)
    db.session.add(log)
    db.session.commit()
    return log


@pytest.fixture
def history(ctx):
    return {
        'today': add_log(datetime(2024, 5, 15, 9), LogCategory.VERIFICATION, LogStatus.FAILURE, LogAction.VERIFY,
                         details='Verification failed: forged scan'),
        'yesterday': add_log(datetime(2024, 5, 14, 10), LogCategory.VERIFICATION, LogStatus.SUCCESS,
                             LogAction.VERIFY, details='Verification succeeded'),
        'sunday': add_log(datetime(2024, 5, 12, 8), LogCategory.BLOCKCHAIN, LogStatus.SUCCESS,
                          LogAction.BLOCKCHAIN_UPLOAD),
        'saturday': add_log(datetime(2024, 5, 11, 23, 59), details='User logged in'),
        'last_month': add_log(datetime(2024, 4, 30, 18), details='User logged in'),
    }


class TestListLogs:
    def test_newest_first_with_pagination(self, history):
        result = AuditService.list_logs(page=1, limit=2)
        assert [log.id for log in result['logs']] == [history['today'].id, history['yesterday'].id]
        assert result['pagination'] == {'total': 5, 'page': 1, 'limit': 2, 'pages': 3}

    def test_filters(self, history):
        def ids(**filters):
            return [log.id for log in AuditService.list_logs(filters)['logs']]

        assert ids(category=LogCategory.VERIFICATION, status=LogStatus.FAILURE) == [history['today'].id]
        assert ids(action=LogAction.BLOCKCHAIN_UPLOAD) == [history['sunday'].id]
        assert ids(search='LOGGED') == [history['saturday'].id, history['last_month'].id]

    def test_end_date_includes_whole_day(self, history):
        logs = AuditService.list_logs({'start_date': '2024-05-11', 'end_date': '2024-05-11'})['logs']
        assert [log.id for log in logs] == [history['saturday'].id]

    def test_bad_date(self, ctx):
        with pytest.raises(ValueError):
            AuditService.list_logs({'start_date': '15/05/2024'})


class TestStats:
    def test_overview(self, history):
        stats = AuditService.get_stats(now=NOW)

        assert stats['overview'] == {'total': 5, 'today': 1, 'yesterday': 1, 'thisWeek': 3, 'thisMonth': 4}
        assert stats['verification'] == {'total': 2, 'successful': 1, 'failed': 1}
        assert stats['blockchain'] == {'total': 1, 'successful': 1, 'failed': 0}

    def test_daily_activity_covers_last_seven_days(self, history):
        daily = AuditService.get_stats(now=NOW)['dailyActivity']

        assert [d['date'] for d in daily] == ['2024-05-09', '2024-05-10', '2024-05-11', '2024-05-12',
                                              '2024-05-13', '2024-05-14', '2024-05-15']
        assert [d['count'] for d in daily] == [0, 0, 1, 1, 0, 1, 1]

    def test_recent_failures_and_categories(self, history):
        stats = AuditService.get_stats(now=NOW)

        assert [f['id'] for f in stats['recentFailures']] == [history['today'].id]
        assert stats['recentFailures'][0]['details'] == 'Verification failed: forged scan'
        assert stats['categories'][0] == {'category': LogCategory.AUTH, 'count': 2}

    def test_empty(self, ctx):
        stats = AuditService.get_stats(now=NOW)
        assert stats['overview']['total'] == 0
        assert stats['recentFailures'] == []
        assert stats['categories'] == []


class TestExport:
    def test_csv(self, history):
        output, mimetype, filename = AuditService.export_logs({'category': LogCategory.AUTH}, 'csv')

        assert mimetype == 'text/csv'
        assert filename.startswith('activity_logs_') and filename.endswith('.csv')
        df = pd.read_csv(output, keep_default_na=False)
        assert list(df.columns)[:4] == ['Date', 'Action', 'Category', 'Status']
        assert len(df) == 2
        assert set(df['Details']) == {'User logged in'}

    def test_xlsx(self, history):
        output, mimetype, filename = AuditService.export_logs(None, 'xlsx')

        assert filename.endswith('.xlsx')
        sheet = load_workbook(io.BytesIO(output.getvalue()))['Activity_Logs']
        assert sheet['A1'].value == 'Date'
        assert sheet['A1'].font.bold
        assert sheet.freeze_panes == 'A2'
        assert sheet.max_row == 6

    def test_empty_export_keeps_header(self, ctx):
        output, _, _ = AuditService.export_logs(None, 'csv')
        assert output.getvalue().decode('utf-8').startswith('Date,Action,Category,Status')

    def test_unknown_format(self, ctx):
        with pytest.raises(ValueError):
            AuditService.export_logs(None, 'pdf')
